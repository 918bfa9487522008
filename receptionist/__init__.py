"""AI Receptionist — books appointments for callers of a voice assistant.

Architecture Overview
=====================

A voice platform calls the webhook with a tool call carrying the caller's
name, phone number, e-mail and requested date/time.  The request is
resolved in one of two ways:

1. **Fast path** — the date/time is machine-readable.  The
   ``BookingCoordinator`` checks business hours and the calendar's
   free/busy, books the slot, or offers the 3 closest alternatives.

2. **Agent path** — the date/time is natural language ("next Tuesday
   afternoon").  A LangGraph ``ToolCallAgent`` lets Claude resolve it with
   ``checkAvailability`` / ``bookAppointment`` tools and finish with
   ``reportOutcome``.  Both paths book only through the coordinator.

Routing: webhook → normalize → business routing → (fast path | agent) → call log → spoken reply

Key Design Decisions
--------------------
- **Calendar**: Google Calendar v3 over ``httpx`` with exponential backoff
  (3 attempts) for timeouts and 5xx; service-account auth via ``google-auth``.
- **Always check before book**: availability is resolved inside every
  booking attempt, under a per-slot reservation lock.
- **Bounded agent**: at most 10 model calls per request, explicit timeouts.
- **Idempotency**: retried webhooks with the same ``toolCallId`` are answered
  from an in-memory LRU cache.
- **Persistence**: call logs, appointments and business routing in SQLModel.

Package Structure
-----------------
- ``receptionist/models.py`` — time windows, business hours, outcomes
- ``receptionist/config.py`` — Centralized configuration from environment variables
- ``receptionist/scheduling/`` — availability, alternative search, booking
- ``receptionist/agent.py`` — LangGraph StateGraph definition
- ``receptionist/prompts.py`` — System prompt and caller summary
- ``receptionist/tools/`` — LangChain tools for the agent
- ``receptionist/normalizer.py`` — webhook payload → canonical tool call
- ``receptionist/handler.py`` — webhook processing end to end
- ``receptionist/services/`` — Google Calendar, persistence, cache, metrics
- ``receptionist/server.py`` — FastAPI application
- ``receptionist/main.py`` — CLI replay / booking console
- ``receptionist/api/`` — FastAPI routes and Pydantic schemas
"""
