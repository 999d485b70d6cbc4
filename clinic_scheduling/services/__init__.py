"""Service layer for slot computation and waitlist backfill."""
