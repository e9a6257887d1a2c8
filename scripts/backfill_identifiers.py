from dotenv import load_dotenv

from entitlements.core.config import Settings
from entitlements.core.logging import configure_logging
from entitlements.infrastructure.persistence.sqlite import SQLitePersistence
from entitlements.services.identity_resolver import IdentityResolver


def main() -> None:
    load_dotenv()
    configure_logging()

    settings = Settings()
    persistence = SQLitePersistence(settings.database_path)
    try:
        resolver = IdentityResolver(persistence, persistence, legacy_formats=settings.legacy_identifier_formats)
        moved = resolver.backfill_subscription_owners()
    finally:
        persistence.close()

    print(f"Backfill concluded. {moved} subscription(s) moved to canonical identifiers.")


if __name__ == "__main__":
    main()
