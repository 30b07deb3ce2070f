from .bars import BarRepository, InsertResult
from .instrument import InstrumentRepository
from .task import TaskRepository

__all__ = ["BarRepository", "InsertResult", "InstrumentRepository", "TaskRepository"]
