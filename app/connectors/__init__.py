"""Query backend connectors"""

from app.connectors.base import QueryBackend, QueryFilter, QueryRequest
from app.connectors.cube import CubeQueryBackend
