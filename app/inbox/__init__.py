"""
Unified inbox: contact point resolution, timeline reconciliation, conversation assembly
"""

from .contact_points import ContactPointResolver
from .timeline import TimelineBuilder, TimelineEntry, ConversationThread, EntryType, RECONCILIATION_WINDOW
from .assembler import ConversationAssembler, ConversationView
from .feed import InboxFeed
