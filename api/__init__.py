# MA Leaderboard - API
#
# FastAPI app (main.py), request schemas and the service layer.
