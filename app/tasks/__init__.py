"""
In-process task queue and workers for background analysis
"""

from .queue import SimpleTaskQueue, Task, TaskStatus, task_queue, get_task_queue
from .workers import AnalyzeCallTask
