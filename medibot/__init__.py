"""MediBot — a conversational backend for a medical appointment clinic.

Architecture Overview
=====================

A patient sends free text to ``POST /ai-chats``.  The request handler
authenticates the session cookie, wraps the text with the patient's name
and id, and runs a **LangGraph** agent once:

1. **llm_call** — Invokes the Anthropic model with a short system prompt
   (including today's date in the clinic time zone) and the appointment
   tools bound.  The model decides whether to answer or call tools.

2. **tools** — Executes the requested tool calls against the appointment
   service and feeds the results back to the llm_call node.

3. **give_up** — Ends the loop with a fixed apology once the model has
   used ``MAX_AGENT_ITERATIONS`` round-trips.

Routing: llm_call → (tool calls?) → tools → llm_call (loop until no tool calls → END)

Key Design Decisions
--------------------
- **Store**: SQLModel tables for patients, doctors and appointments.  The
  one-Pending-appointment-per-day rule is also a partial unique index, so
  concurrent bookings cannot both succeed.
- **Scheduling rules**: seven ordered checks (date, horizon, weekday,
  duplicate, capacity, lead time, blackout) in ``services/scheduling.py``,
  all evaluated in one fixed time zone.
- **Errors**: appointment operations return tagged results
  (``Ok`` / ``Empty`` / ``Err``) and never raise; the tool layer renders
  them as text for the model.

Package Structure
-----------------
- ``medibot/agent.py`` — LangGraph StateGraph definition
- ``medibot/config.py`` — Centralized configuration from environment variables
- ``medibot/models.py`` — SQLModel tables
- ``medibot/prompts.py`` — System prompt and patient message
- ``medibot/server.py`` — FastAPI application
- ``medibot/main.py`` — CLI chat interface
- ``medibot/api/`` — Routes, schemas and cookie authentication
- ``medibot/services/`` — Database, store queries, scheduling rules, appointment operations, metrics
- ``medibot/tools/`` — LangChain tools
"""
