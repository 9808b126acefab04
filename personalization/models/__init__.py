from .user_profile import UserProfile
from .content import LearningContent
from .content_interaction import ContentInteraction
from .recommendation import Recommendation
from .usage_event import UsageEvent
from .adaptive_insight import AdaptiveInsight
from .study_session import StudySession
from .achievement import Achievement, UserAchievement

__all__ = [
    "UserProfile",
    "LearningContent",
    "ContentInteraction",
    "Recommendation",
    "UsageEvent",
    "AdaptiveInsight",
    "StudySession",
    "Achievement",
    "UserAchievement",
]
