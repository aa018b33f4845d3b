from .db import db
from .service import Service
from .booking import Booking
from .blocked_date import BlockedDate
from .audit_log import AuditLog
from .ip_rate_limit import IpRateLimit
