# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre les clés étrangères et les relations
# déclarées par nom ("User", "Attachment", ...).

from app.models.school_class import SchoolClass, ProfessorClass, ParentStudent  # noqa: F401
from app.models.user import Role, User  # noqa: F401
from app.models.attachment import Attachment  # noqa: F401
from app.models.post import Comment, Like, Post, PostType  # noqa: F401
from app.models.thread import Message, MessageThread, ThreadParticipant, ThreadRead  # noqa: F401
