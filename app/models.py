from sqlalchemy import Column, String

from .db import Base


class AnchorEntry(Base):
    __tablename__ = "anchors"

    key = Column(String(66), primary_key=True)  # 0x + 32 bytes hex
    cid = Column(String, nullable=False)
    piece_cid = Column(String, nullable=False, default="")
    deal_id = Column(String, nullable=False, default="0")  # uint64 as decimal text
    enc_hash = Column(String(66), nullable=False)
    updated_at = Column(String, nullable=True)
