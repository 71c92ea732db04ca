from fastapi import APIRouter, Depends, HTTPException

import auth
from responses import ok
from schemas import LoginIn, UserCreate

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login")
def login(body: LoginIn):
    user = auth.authenticate(body.email, body.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token = auth.create_access_token(str(user["_id"]))
    return ok({"user": auth.public_user(user), "token": token}, "Login successful")


@router.get("/me")
def me(user=Depends(auth.current_user)):
    return ok(auth.public_user(user), "User profile retrieved")


@router.post("/register", status_code=201)
def register(body: UserCreate, admin=Depends(auth.require_admin)):
    user = auth.register_user(body.name, body.email, body.password, body.role, body.phone)
    return ok({"user": user, "token": auth.create_access_token(user["_id"])}, "User registered successfully", 201)
