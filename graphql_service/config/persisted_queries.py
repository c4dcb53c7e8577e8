# This software is provided to the United States Government (USG) with SBIR Data Rights as defined at Federal Acquisition Regulation 52.227-14, "Rights in Data-SBIR Program" (May 2014) SBIR Rights Notice (Dec 2023-2024) These SBIR data are furnished with SBIR rights under Contract No. H9241522D0001. For a period of 19 years, unless extended in accordance with FAR 27.409(h), after acceptance of all items to be delivered under this contract, the Government will use these data for Government purposes only, and they shall not be disclosed outside the Government (including disclosure for procurement purposes) during such period without permission of the Contractor, except that, subject to the foregoing use and disclosure prohibitions, these data may be disclosed for use by support Contractors. After the protection period, the Government has a paid-up license to use, and to authorize others to use on its behalf, these data for Government purposes, but is relieved of all disclosure prohibitions and assumes no liability for unauthorized use of these data by third parties. This notice shall be affixed to any reproductions of these data, in whole or in part.
from __future__ import annotations
from typing import Literal
from graphql_service.config._base import Base


class PersistedQueries(Base):
    # Disabled by default; a PERSISTED_QUERY filter can still supply queries
    PERSISTED_QUERIES_ENABLED: bool = False
    PERSISTED_QUERIES_BACKEND: Literal["memory", "database"] = "database"
    PERSISTED_QUERIES_TABLE: str = "graphql_query"
    # Anonymous operations are never persisted when this is set
    OPERATION_NAME_REQUIRED_FOR_SAVE: bool = True
    SAVE_ON_EXECUTE: bool = True
    STORE_TIMEOUT: float | None = 5.0


persisted_queries = PersistedQueries()
