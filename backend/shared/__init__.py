"""
Shared module for common utilities used by the order API and the CLI.

CLEAN ARCHITECTURE STRUCTURE:
- shared.security: Authentication, tenant context, rate limiting
  - auth.py: JWT signing/verification, bearer token extraction
  - tenant_context.py: TenantContext (who is calling, for which restaurant)
  - rate_limit.py: slowapi limiter

- shared.infrastructure: Database, Redis and request correlation
  - db.py: SQLAlchemy sessions, transaction(), safe_commit()
  - redis/: Sync connection pool, key and channel layout
  - correlation.py: Correlation IDs for logs

- shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging
  - constants.py: Role, OrderStatus, transitions, limits

- shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging
  - schemas.py: Shared Pydantic schemas

IMPORT EXAMPLES:
    from shared.security.auth import verify_jwt, sign_jwt
    from shared.infrastructure.db import get_db, safe_commit
    from shared.config.settings import settings
    from shared.config.constants import Role, OrderStatus
    from shared.utils.exceptions import NotFoundError, VersionConflictError
"""
