from __future__ import annotations

from .core import Topic


TOPIC_GENERATION = Topic("studio.generation")
TOPIC_CREDIT = Topic("studio.credit")
