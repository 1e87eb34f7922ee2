import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///arena.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Socket/HTTP auth tokens (seconds)
    TOKEN_MAX_AGE_SEC = int(os.environ.get('TOKEN_MAX_AGE_SEC', '3600'))
    # Round wins needed to take a match
    WIN_THRESHOLD = int(os.environ.get('WIN_THRESHOLD', '3'))
    # Entries in the broadcast leaderboard
    RANKING_SIZE = int(os.environ.get('RANKING_SIZE', '10'))
    # Comma separated list of browser origins allowed to connect
    CORS_ORIGINS = [
        o.strip() for o in os.environ.get(
            'CORS_ORIGINS', 'http://localhost:3000,http://127.0.0.1:3000'
        ).split(',') if o.strip()
    ]
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    PORT = int(os.environ.get('PORT', '3000'))
