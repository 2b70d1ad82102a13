from jobs.message_sender_job import MessageSenderJob

__all__ = ["MessageSenderJob"]
