from .user import User, UserProfile
