from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from database import Base
from schemas import CodeBlockRecord

class CodeBlock(Base):
    __tablename__ = "code_blocks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    initial_template = Column(Text, default="")
    solution = Column(Text, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_record(self) -> CodeBlockRecord:
        return CodeBlockRecord(
            id=str(self.id),
            title=self.title,
            initial_template=self.initial_template or "",
            solution=self.solution or "",
        )

    def __repr__(self):
        return f"<CodeBlock(id={self.id}, title={self.title})>"
