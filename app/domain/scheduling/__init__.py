"""
Scheduling Domain

Computes free meeting slots from a host's weekly availability and reserves
them without double-booking.

Structure:
```
app/domain/scheduling/
├── __init__.py
├── time_utils.py      # Zone-aware stepping, overlap test, weekday encoding (Sunday=0)
├── availability.py    # Availability index: active windows per host and weekday
├── slots.py           # Slot generator (15-minute grid, notice, buffers)
├── conflicts.py       # Conflict resolver: pure overlap checks
├── locks.py           # Per-host write serialization (Redis or in-process)
├── exceptions.py      # NotFound, SlotUnavailable, AlreadyCancelled, InvalidRequest, ...
├── repository.py      # SQLAlchemy queries; soft-delete filter lives here
├── service.py         # BookingTransactionManager + SchedulingService
├── schemas.py         # Request/response models
└── router.py          # /scheduling endpoints (public booking flow + host config)
```

Booking lifecycle:
- created directly as `confirmed` (no approval phase)
- `confirmed -> cancelled` by the guest (terminal)
- rescheduling moves start/end in place, status unchanged
- `completed` / `no_show` are set by post-meeting processing elsewhere
"""

from .router import router

__all__ = ["router"]
