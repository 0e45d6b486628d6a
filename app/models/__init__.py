"""模型集合。"""

from .audit_log import AccessLog, PolicyViolationLog
from .feature import Feature
from .role import Role
from .user import User

__all__ = ["AccessLog", "Feature", "PolicyViolationLog", "Role", "User"]
