import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

class Config:
    # Azure CosmosDB Configuration
    COSMOSDB_ENDPOINT = os.getenv("COSMOS_DB_ENDPOINT")
    COSMOSDB_DATABASE_NAME = os.getenv("COSMOS_DB_DATABASE")
    COSMOSDB_CONTAINER_NAME = {
        "pts": os.getenv("COSMOS_CONTAINERS_PTS", "pts"),
        "schedules": os.getenv("COSMOS_CONTAINERS_SCHEDULES", "schedules"),
        "products": os.getenv("COSMOS_CONTAINERS_PRODUCTS", "products"),
        "trainer_offs": os.getenv("COSMOS_CONTAINERS_TRAINER_OFFS", "trainer_offs")
    }
    # Cosmos DB rejects transactional batches larger than this
    MAX_BATCH_OPERATIONS = int(os.getenv("COSMOS_MAX_BATCH_OPERATIONS", "100"))

    # Azure Entra External ID Configuration
    AZURE_ENTRAID_TENANT_SUBDOMAIN = os.getenv("AZURE_ENTRAID_TENANT_SUBDOMAIN")
    AZURE_ENTRAID_TENANT_ID = os.getenv("AZURE_ENTRAID_TENANT_ID")
    AZURE_ENTRAID_CLIENT_ID = os.getenv("AZURE_ENTRAID_CLIENT_ID")

    # Application Insights
    APPLICATIONINSIGHTS_CONNECTION_STRING = os.getenv("APPINSIGHTS_INSTRUMENTATIONKEY")

    # Scheduling rules
    TIMEZONE = os.getenv("SCHEDULE_TIMEZONE", "Asia/Seoul")
    SLOT_OPEN_TIME = int(os.getenv("SCHEDULE_SLOT_OPEN_TIME", "600"))
    SLOT_CLOSE_TIME = int(os.getenv("SCHEDULE_SLOT_CLOSE_TIME", "2200"))
    REGULAR_HORIZON_WEEKS = int(os.getenv("SCHEDULE_REGULAR_HORIZON_WEEKS", "52"))
    AVAILABILITY_WINDOW_MONTHS = int(os.getenv("SCHEDULE_AVAILABILITY_WINDOW_MONTHS", "3"))
    BOOKING_WRITE_ATTEMPTS = int(os.getenv("SCHEDULE_BOOKING_WRITE_ATTEMPTS", "3"))
    CHANGE_REQUEST_CUTOFF_HOURS = int(os.getenv("SCHEDULE_CHANGE_CUTOFF_HOURS", "24"))
    CHANGE_REQUEST_EXPIRY_HOURS = int(os.getenv("SCHEDULE_CHANGE_EXPIRY_HOURS", "48"))
