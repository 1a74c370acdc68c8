from contentcron.mail.batching import chunked, deliver_in_batches
from contentcron.mail.transport import LogMailer, MailTransportError, ResendMailer, build_mailer
from contentcron.mail.types import BatchResult, DeliveryReport

__all__ = [
    "BatchResult",
    "DeliveryReport",
    "LogMailer",
    "MailTransportError",
    "ResendMailer",
    "build_mailer",
    "chunked",
    "deliver_in_batches",
]
