"""Named monotonic counters for human-readable ids"""

from sqlalchemy import Column, String, BigInteger

from app.database import Base


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    name = Column(String(50), primary_key=True)
    value = Column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.value}>"
