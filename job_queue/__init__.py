"""
Message queue and drain scheduler.

Webhook admission pushes inbound messages onto an in-process FIFO; a single
drain loop pulls them in bounded batches and replies to each one.
"""
from job_queue.message_queue import MessageQueue
from job_queue.scheduler import DrainScheduler, create_scheduler

__all__ = ["MessageQueue", "DrainScheduler", "create_scheduler"]
