import os
import sys
from datetime import datetime

import pytest

# Ensure the project root is on the import path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from ingest.memory_store import InMemoryEventStore
from ingest.schemas import City


class FakeLLM:
    """Stands in for StructuredLLM; returns queued answers in call order.

    A queued exception is raised instead of returned. A callable answer is
    called with ``(system, prompt, schema)``.
    """

    def __init__(self, *answers):
        self.answers = list(answers)
        self.calls = []

    def generate_structured(self, system, prompt, schema, temperature=0.2):
        self.calls.append((system, prompt, schema))
        if not self.answers:
            return schema()
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            return answer(system, prompt, schema)
        return answer


CITIES = [
    City(id="city-cba", name="Córdoba", aliases=("Cordoba Capital",), province="Córdoba"),
    City(id="city-caba", name="Buenos Aires", aliases=("Bs As", "CABA"), province="Buenos Aires"),
    City(id="city-ros", name="Rosario", province="Santa Fe"),
]


@pytest.fixture
def store():
    return InMemoryEventStore(cities=CITIES, clock=lambda: datetime(2026, 3, 1, 12, 0))
