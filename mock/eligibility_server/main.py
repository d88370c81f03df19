from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pathlib import Path
import json
import os

app = FastAPI(title="Mock Eligibility Server", version="1.0.0")
# Support both local development and Docker
DATA_DIR = Path("/eligibility_stub") if os.path.exists("/eligibility_stub") else Path(__file__).resolve().parents[2] / "eligibility_stub"

@app.get("/health")
def health(): return {"status": "ok"}

@app.get("/eligibility/instant")
def get_instant_eligibility(seller_id: str, date: str):
    file = DATA_DIR / f"eligibility_{seller_id}.json"
    if not file.exists():
        raise HTTPException(status_code=404, detail="seller not found")
    eligible_dates = json.loads(file.read_text()).get("instant_eligible_dates", [])
    return JSONResponse(content={"seller_id": seller_id, "date": date, "eligible": date in eligible_dates})

@app.post("/mock-notifications")
def receive_notification(payload: dict):
    return {"received": True, "event": payload.get("event")}
