"""Core package: provides models, database tables, settings, errors, the rule engine, and shared utilities."""

from .categorizer import CategoryMatch, CategoryRule, categorize  # noqa: F401
from .errors import IngestError  # noqa: F401
from .models import NormalizedStatement, ParseResult, StatementStatus  # noqa: F401
from .settings import Settings, get_settings  # noqa: F401
