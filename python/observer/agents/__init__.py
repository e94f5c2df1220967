from .orchestrator import Attempt, Orchestrator, State, StateMachine, TurnResult
from .progress import Heartbeat, ProgressThrottle
from .runtime import Attachment, InboundMessage, ObserverRuntime, build_user_message
