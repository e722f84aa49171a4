"""ORM models.

Importing this package registers every table on ``Base.metadata``.
"""

from rsa_writer.core.models.base import Base
from rsa_writer.core.models.profiles import Profile
from rsa_writer.core.models.projects import Project

__all__ = ["Base", "Profile", "Project"]
