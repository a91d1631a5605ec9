from .user import User
from .project import Project, generate_api_key
from .project_member import ProjectMember, ROLE_OWNER, ROLE_ADMIN, ROLE_MEMBER
from .feedback import Feedback
from .vote import Vote
from .comment import Comment
from .sdk_user import SDKUser
from .email_log import EmailLog
from .outbound_event import OutboundEvent

__all__ = [
    "User",
    "Project",
    "generate_api_key",
    "ProjectMember",
    "ROLE_OWNER",
    "ROLE_ADMIN",
    "ROLE_MEMBER",
    "Feedback",
    "Vote",
    "Comment",
    "SDKUser",
    "EmailLog",
    "OutboundEvent",
]
