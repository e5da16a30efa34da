from fastapi import FastAPI
from ptscheduler.routers import rou_schedule, rou_schedule_change
from ptscheduler.configuration.monitor import instrument_fastapi

app = FastAPI(
    title="PT Scheduler API",
    description="Scheduling and slot allocation for personal training bookings",
    version="1.0.0"
)

app.include_router(rou_schedule.router)
app.include_router(rou_schedule_change.router)

# Instrument app with Azure Monitor
instrument_fastapi(app)

if __name__ == '__main__':
    import uvicorn
    uvicorn.run(app, host='0.0.0.0', port=8000)
