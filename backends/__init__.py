# backends/__init__.py
from . import memory
from . import rest

BACKENDS = {
    "memory": memory.MemoryRemote,
    "rest": rest.RestRemote,
}
