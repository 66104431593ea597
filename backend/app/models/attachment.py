"""
Pièces jointes d'une publication ou d'un message.
Immuables une fois créées : seules les références (url, clé de stockage) sont en base,
les octets vivent dans le stockage binaire.
"""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String

from app.database import Base


class Attachment(Base):
    __tablename__ = "attachments"
    __table_args__ = (
        # Rattachée à exactement un parent : publication OU message
        CheckConstraint(
            "(post_id IS NULL) <> (message_id IS NULL)",
            name="ck_attachments_single_parent",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=True)
    message_id = Column(Integer, ForeignKey("messages.id", ondelete="CASCADE"), nullable=True)
    url = Column(String(500), nullable=False)
    storage_key = Column(String(500), nullable=False)
    filename = Column(String(255), nullable=False)
    mime_type = Column(String(100), nullable=False)
    size = Column(Integer, nullable=False)
