from .user import User, FreelancerProfile, ClientArtistAffinity
from .task import Task, TaskStatus, Complexity, Urgency
from .offer import TaskOffer, OfferResponse, DeclineReason
from .activity import TaskActivity
from .algorithm import AlgorithmConfig
