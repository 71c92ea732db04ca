"""Create the initial admin account from ADMIN_EMAIL / ADMIN_PASSWORD."""
import logging
import sys

import auth
from config import settings
from database import USERS, db

logger = logging.getLogger("seed")


def seed_admin() -> bool:
    if not settings.ADMIN_PASSWORD:
        raise SystemExit("ADMIN_PASSWORD is not set")
    email = settings.ADMIN_EMAIL.strip().lower()
    if db()[USERS].find_one({"email": email}) is not None:
        logger.info("Admin %s already exists", email)
        return False
    auth.register_user(settings.ADMIN_NAME, email, settings.ADMIN_PASSWORD, role="admin")
    logger.info("Admin %s created", email)
    return True


def main() -> int:
    logging.basicConfig(level=settings.LOG_LEVEL.upper(), format="%(levelname)s %(message)s")
    seed_admin()
    return 0


if __name__ == "__main__":
    sys.exit(main())
