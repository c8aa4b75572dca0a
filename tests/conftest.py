"""Shared fixtures: a scripted model caller and a fake search tool."""
from typing import Any, Dict, List, Tuple, Type

import pytest
from pydantic import BaseModel


class FakeModelCaller:
    """
    Scripted stand-in for the structured model caller.

    Responses are queued per shape class and consumed in order. A queued
    exception is raised instead of returned. Every call is recorded.
    """

    def __init__(self):
        self._queues: Dict[Type[BaseModel], List[Any]] = {}
        self.calls: List[Tuple[str, Type[BaseModel]]] = []
        self.on_call = None

    def queue(self, shape: Type[BaseModel], _item: Any = None, **fields) -> "FakeModelCaller":
        self._queues.setdefault(shape, []).append(_item if _item is not None else fields)
        return self

    def generate(self, prompt, shape, cancel_token=None):
        self.calls.append((prompt, shape))
        if self.on_call is not None:
            self.on_call(prompt, shape, cancel_token)
        queue = self._queues.get(shape)
        if not queue:
            raise AssertionError(f"Unexpected model call for {shape.__name__}")
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return shape(**item)

    @property
    def shapes(self) -> List[Type[BaseModel]]:
        return [shape for _, shape in self.calls]

    def prompt_for(self, shape: Type[BaseModel]) -> str:
        return next(prompt for prompt, s in self.calls if s is shape)


class FakeSearchTool:
    def __init__(self, results=None):
        self.results = results if results is not None else [
            {"url": "https://example.com/a", "title": "A", "description": "first"},
        ]
        self.queries: List[str] = []

    def run(self, query):
        self.queries.append(query)
        return list(self.results)


@pytest.fixture
def fake_llm():
    return FakeModelCaller()


@pytest.fixture
def fake_search():
    return FakeSearchTool()
