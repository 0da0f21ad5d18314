# API Services
#
# The leaderboard core: enrollment landscape, measure resolution, ranking
# and state rollups. Services take an injected MARepository; the singleton
# getters wire them to the shared query engine for the API.

from .landscape_service import EnrollmentLandscapeBuilder, LandscapeSnapshot, build_contract_landscapes
from .leaderboard_service import LeaderboardService, get_leaderboard_service
from .measure_service import MeasureValueResolver
from .states_service import StatesService, get_states_service

__all__ = [
    'EnrollmentLandscapeBuilder',
    'LandscapeSnapshot',
    'build_contract_landscapes',
    'LeaderboardService',
    'get_leaderboard_service',
    'MeasureValueResolver',
    'StatesService',
    'get_states_service',
]
