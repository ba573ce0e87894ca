# Namespace for ORM models. Importing this package registers every table on Base.
from .fragment import AudioComponent, CachedFragment, UserVoiceProfile
from .job import AssemblyJob, JobStatus
from .notification import UserNotification

__all__ = [
    "AssemblyJob",
    "AudioComponent",
    "CachedFragment",
    "JobStatus",
    "UserNotification",
    "UserVoiceProfile",
]
