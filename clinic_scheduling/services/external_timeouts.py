"""
Timeout configuration for external service calls.

Usage:
    from clinic_scheduling.services.external_timeouts import CALENDAR_TIMEOUT

    async with httpx.AsyncClient(timeout=CALENDAR_TIMEOUT) as client:
        response = await client.post(url, json=data)
"""
import httpx

# Calendar integration service - generally responsive; never worth blocking booking for
CALENDAR_TIMEOUT = httpx.Timeout(10.0, connect=3.0)

# SMTP socket timeout in seconds (smtplib takes a plain float)
SMTP_TIMEOUT = 30.0
