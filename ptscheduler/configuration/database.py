from functools import lru_cache
from azure.cosmos import CosmosClient
from azure.identity import DefaultAzureCredential
from ptscheduler.configuration.config import Config
from ptscheduler.stores.sto_pt import PtStore

@lru_cache(maxsize=1)
def get_client() -> CosmosClient:
    """
    Build the Cosmos client on first use so that importing the application
    (tests, tooling) does not require credentials.
    """
    return CosmosClient(
        url=Config.COSMOSDB_ENDPOINT,
        credential=DefaultAzureCredential()
    )

# Dictionary to store container references
containers = {}

def get_container(container_key: str):
    """
    Provides the CosmosDB container client
    Args:
        container_key (str): Key of the container to get (pts, schedules, etc.)
    Returns:
        Container client for the specified container
    """
    if container_key not in Config.COSMOSDB_CONTAINER_NAME:
        raise ValueError(f"Container {container_key} not found")
    if container_key not in containers:
        database = get_client().get_database_client(Config.COSMOSDB_DATABASE_NAME)
        containers[container_key] = database.get_container_client(
            Config.COSMOSDB_CONTAINER_NAME[container_key]
        )
    return containers[container_key]

def get_store() -> PtStore:
    """Dependency injection function for FastAPI endpoints."""
    return PtStore(
        pts=get_container("pts"),
        schedules=get_container("schedules"),
        products=get_container("products"),
        trainer_offs=get_container("trainer_offs")
    )
