from .users import User, SessionToken, TermsAgreement
from .profiles import Profile, StoreProfile, OrganizerProfile
from .events import Event, EventApplication
from .documents import Document, ProfileDocument, ApplicationDocument

__all__ = [
    'User', 'SessionToken', 'TermsAgreement',
    'Profile', 'StoreProfile', 'OrganizerProfile',
    'Event', 'EventApplication',
    'Document', 'ProfileDocument', 'ApplicationDocument',
]
