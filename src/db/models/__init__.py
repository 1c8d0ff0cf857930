from src.db.models.activity import EventActivity
from src.db.models.base import Base
from src.db.models.event import Event
from src.db.models.participation import EventParticipation
from src.db.models.proposal import Proposal
from src.db.models.proposal_activity import ProposalActivity
from src.db.models.scoring import ScoringWeight
from src.db.models.user import User

__all__ = [
    "Base",
    "User",
    "Event",
    "EventParticipation",
    "EventActivity",
    "Proposal",
    "ProposalActivity",
    "ScoringWeight",
]
