"""Error types raised at the service boundaries."""


class ChatbotError(Exception):
    """Base class for all application errors."""


class AuthError(ChatbotError):
    """Sign-in against Firebase Authentication was rejected or failed."""


class StoreWriteError(ChatbotError):
    """A Firestore write was not accepted."""


class StoreReadError(ChatbotError):
    """A Firestore read or query failed."""


class InferenceError(ChatbotError):
    """The model endpoint could not be reached or answered with an error."""


class PipelineBusyError(ChatbotError):
    """A submission was attempted while another one is still in flight."""
