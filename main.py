import os
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Optional, List

from fastapi import FastAPI, HTTPException, Depends, status, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database

from config import Settings, get_settings
from database import close_client, get_db
from errors import HabitNudgeError
from gamification import aggregate, week_start
from logging_config import get_logger, setup_logging
from security import (
    create_access_token,
    ensure_owner,
    get_current_user_id,
    get_password_hash,
    verify_password,
)
from store import HabitStore, habit_out, nudge_out, user_out

logger = get_logger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(get_settings())
    logger.info("Habit Nudge API starting")
    yield
    close_client()


settings = get_settings()
app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HabitNudgeError)
async def habit_nudge_error_handler(request: Request, exc: HabitNudgeError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

# ----------------------- Models -----------------------
class Token(BaseModel):
    access_token: str
    token_type: str

class LoginOut(Token):
    success: bool = True
    user: dict

class RegisterIn(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    userId: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    referredBy: Optional[str] = None

class LoginIn(BaseModel):
    userId: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    badges: Optional[List[str]] = None

class XpIn(BaseModel):
    amount: int = Field(10, ge=0)

class HabitIn(BaseModel):
    userId: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    frequency: str = Field(..., min_length=1)
    reminderTime: str = Field(..., min_length=1)

class HabitUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    frequency: Optional[str] = Field(None, min_length=1)
    reminderTime: Optional[str] = Field(None, min_length=1)

class NudgeIn(BaseModel):
    message: str = Field(..., min_length=1)
    type: str = "manual"

# ----------------------- Dependencies -----------------------

def get_store(db: Database = Depends(get_db), settings: Settings = Depends(get_settings)) -> HabitStore:
    return HabitStore(db, max_attempts=settings.COMPLETION_MAX_ATTEMPTS, referral_xp=settings.REFERRAL_XP)


def get_today() -> date:
    """Current calendar date in UTC."""
    return datetime.now(timezone.utc).date()


def authorized_user(userId: str, current_user_id: str = Depends(get_current_user_id)) -> str:
    ensure_owner(userId, current_user_id)
    return userId

# ----------------------- Auth -----------------------
@app.post("/auth/register", status_code=status.HTTP_201_CREATED)
def register(body: RegisterIn, store: HabitStore = Depends(get_store)):
    store.create_user(
        body.userId,
        name=body.name,
        email=body.email,
        password_hash=get_password_hash(body.password),
        referred_by=body.referredBy,
    )
    return {"success": True, "message": "User registered"}


@app.post("/auth/login", response_model=LoginOut)
def login(
    body: LoginIn,
    store: HabitStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    user = store.get_user(body.userId)
    if not verify_password(body.password, user.get("password", "")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    access_token = create_access_token({"sub": body.userId, "email": user.get("email")}, settings)
    return {
        "success": True,
        "access_token": access_token,
        "token_type": "bearer",
        "user": user_out(user),
    }

# ----------------------- Users -----------------------
@app.get("/users/{userId}")
def get_user(userId: str = Depends(authorized_user), store: HabitStore = Depends(get_store)):
    return {"user": user_out(store.get_user(userId))}


@app.put("/users/{userId}")
def update_user(body: UserUpdate, userId: str = Depends(authorized_user), store: HabitStore = Depends(get_store)):
    store.update_user(userId, body.model_dump(exclude_none=True))
    return {"success": True, "message": "User updated"}


@app.put("/users/{userId}/upgrade")
def upgrade_user(userId: str = Depends(authorized_user), store: HabitStore = Depends(get_store)):
    store.upgrade_user(userId)
    return {"success": True, "message": "User upgraded to Pro"}

# ----------------------- Gamification -----------------------
@app.post("/users/{userId}/xp")
def add_xp(body: XpIn, userId: str = Depends(authorized_user), store: HabitStore = Depends(get_store)):
    xp = store.grant_xp(userId, body.amount)
    return {"success": True, "xp": xp}


@app.post("/users/{userId}/xp/reconcile")
def reconcile_xp(userId: str = Depends(authorized_user), store: HabitStore = Depends(get_store)):
    applied = store.reconcile_user_xp(userId)
    return {"success": True, "applied": applied, "xp": store.get_user(userId).get("xp", 0)}


@app.get("/users/{userId}/badges")
def get_badges(userId: str = Depends(authorized_user), store: HabitStore = Depends(get_store)):
    return {"badges": store.get_badges(userId)}

# ----------------------- Habits -----------------------
@app.post("/createHabit")
def create_habit(
    body: HabitIn,
    current_user_id: str = Depends(get_current_user_id),
    store: HabitStore = Depends(get_store),
):
    ensure_owner(body.userId, current_user_id)
    hid = store.create_habit(body.userId, body.title, body.frequency, body.reminderTime)
    return {"success": True, "id": hid}


@app.get("/habits/{userId}")
def list_habits(userId: str = Depends(authorized_user), store: HabitStore = Depends(get_store)):
    return {"habits": [habit_out(h) for h in store.list_habits(userId)]}


@app.get("/habit/{userId}/{habitId}")
def get_habit(habitId: str, userId: str = Depends(authorized_user), store: HabitStore = Depends(get_store)):
    return habit_out(store.get_habit(userId, habitId))


@app.put("/habit/{userId}/{habitId}/update")
def update_habit(
    habitId: str,
    body: HabitUpdate,
    userId: str = Depends(authorized_user),
    store: HabitStore = Depends(get_store),
):
    store.update_habit(userId, habitId, body.model_dump(exclude_none=True))
    return {"success": True, "message": "Habit updated successfully."}


@app.put("/habit/{userId}/{habitId}/complete")
def complete_habit(
    habitId: str,
    userId: str = Depends(authorized_user),
    store: HabitStore = Depends(get_store),
    today: date = Depends(get_today),
):
    result = store.complete_habit(userId, habitId, today.isoformat())
    return {
        "success": True,
        "message": result.message,
        "newStreak": result.streak,
        "xpGained": result.xp_gained,
    }


@app.delete("/habit/{userId}/{habitId}")
def delete_habit(habitId: str, userId: str = Depends(authorized_user), store: HabitStore = Depends(get_store)):
    store.delete_habit(userId, habitId)
    return {"success": True, "message": "Habit deleted"}

# ----------------------- Dashboard -----------------------
@app.get("/dashboard/{userId}")
def dashboard(
    userId: str = Depends(authorized_user),
    store: HabitStore = Depends(get_store),
    today: date = Depends(get_today),
):
    stats = aggregate(store.list_habits(userId), today.isoformat(), week_start(today).isoformat())
    return stats.to_dict()

# ----------------------- Nudges -----------------------
@app.post("/users/{userId}/habits/{habitId}/nudges", status_code=status.HTTP_201_CREATED)
def create_nudge(
    habitId: str,
    body: NudgeIn,
    userId: str = Depends(authorized_user),
    store: HabitStore = Depends(get_store),
):
    nid = store.add_nudge(userId, habitId, body.message, body.type)
    return {"success": True, "id": nid}


@app.get("/users/{userId}/habits/{habitId}/nudges")
def list_nudges(habitId: str, userId: str = Depends(authorized_user), store: HabitStore = Depends(get_store)):
    return {"nudges": [nudge_out(n) for n in store.list_nudges(userId, habitId)]}


@app.get("/users/{userId}/daily-nudge")
def daily_nudge(
    userId: str = Depends(authorized_user),
    store: HabitStore = Depends(get_store),
    today: date = Depends(get_today),
):
    message, _ = store.daily_nudge(userId, today.isoformat())
    return {"nudge": message}

# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "Habit Nudge API running"}

@app.get("/test")
def test_database(db: Database = Depends(get_db)):
    info = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        info["database"] = "✅ Available"
        info["database_name"] = db.name
        info["collections"] = db.list_collection_names()[:10]
        info["connection_status"] = "Connected"
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        info["database"] = f"Error: {str(e)[:80]}"
    return info

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", settings.PORT))
    uvicorn.run(app, host="0.0.0.0", port=port)
