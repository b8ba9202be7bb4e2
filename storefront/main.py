import logging

import uvicorn

from storefront.config import settings
from storefront.db.sqlite import init_db
from storefront.services.auth import ensure_super_admin
from storefront.web.main import app

def main() -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    init_db()
    ensure_super_admin()

    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)

if __name__ == "__main__":
    main()
