# identity_server/api/config.py
import os

ACCESS_TTL = int(os.environ.get("ACCESS_TTL", 3600))
EMAIL_CHANGE_TTL = int(os.environ.get("EMAIL_CHANGE_TTL", 3600))

# a lock outliving its holder is auto-released by Redis after USER_LOCK_TTL
USER_LOCK_TTL = int(os.environ.get("USER_LOCK_TTL", 10))
USER_LOCK_TIMEOUT = float(os.environ.get("USER_LOCK_TIMEOUT", 5))

# cost for new password hashes and for the unknown-user dummy check
BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", 12))
