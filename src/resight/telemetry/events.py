"""Semantic event constants for structured logging.

Log events use these names rather than string literals so they can be
queried reliably from ``current.jsonl``.
"""

# Task router
REQUEST_RECEIVED = "request_received"
REPLY_READY = "reply_ready"
TASK_STARTED = "task_started"
TASK_COMPLETED = "task_completed"
TASK_FAILED = "task_failed"
TASK_INTERRUPTED = "task_interrupted"
ROUTING_DECISION = "routing_decision"
CAPABILITY_DISPATCHED = "capability_dispatched"
ROUTING_FORCED_NAVIGATE = "routing_forced_navigate"
ROUTING_STRATEGY_FALLBACK = "routing_strategy_fallback"
CLARIFICATION_REPLY_ROUTED = "clarification_reply_routed"

# Cancellation
INTERRUPT_REQUESTED = "interrupt_requested"
INTERRUPT_CLEARED = "interrupt_cleared"
TASK_HANDLE_REGISTERED = "task_handle_registered"
TASK_HANDLE_RELEASED = "task_handle_released"

# Clarification bridge
CLARIFICATION_ASKED = "clarification_asked"
CLARIFICATION_ANSWERED = "clarification_answered"
CLARIFICATION_TIMED_OUT = "clarification_timed_out"
CLARIFICATION_SUPERSEDED = "clarification_superseded"

# Trace stream
TRACE_OBSERVER_FAILED = "trace_observer_failed"
TRACE_SUBSCRIBER_DROPPED = "trace_subscriber_dropped"

# LLM client
MODEL_CALL_STARTED = "model_call_started"
MODEL_CALL_COMPLETED = "model_call_completed"
MODEL_CALL_ERROR = "model_call_error"
MODEL_RESPONSE_UNPARSEABLE = "model_response_unparseable"

# Automation backend
BACKEND_CALL_STARTED = "backend_call_started"
BACKEND_CALL_COMPLETED = "backend_call_completed"
BACKEND_CALL_FAILED = "backend_call_failed"
BACKEND_SESSION_OPENED = "backend_session_opened"
BACKEND_SESSION_CLOSED = "backend_session_closed"

# Execution agent
EXECUTION_TIER_STARTED = "execution_tier_started"
EXECUTION_TIER_FAILED = "execution_tier_failed"
EXECUTION_CHECKPOINT = "execution_checkpoint"
FAST_PATH_PLANNED = "fast_path_planned"
PLAYBOOK_MATCHED = "playbook_matched"
BOT_WALL_DETECTED = "bot_wall_detected"

# Vision
PAGE_DESCRIBED = "page_described"
PAGE_DESCRIPTION_FAILED = "page_description_failed"

# Safety
SAFETY_VERDICT = "safety_verdict"
SAFETY_DEGRADED = "safety_degraded"

# Memory
PREFERENCE_STORED = "preference_stored"
PREFERENCE_STORE_FAILED = "preference_store_failed"
LEARNED_FLOW_SAVED = "learned_flow_saved"

# Service
SERVICE_STARTED = "service_started"
SERVICE_STOPPED = "service_stopped"
