from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from src.api.dependencies import get_db, require_admin
from src.api.routes.routes import booking_response, show_response
from src.api.schemas.schemas import (
    BookingListResponse,
    DashboardData,
    DashboardResponse,
    IsAdminResponse,
    ShowWithSeatsResponse,
)
from src.application.admin_service import AdminService


router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


@router.get("/is-admin", response_model=IsAdminResponse)
def is_admin():
    return IsAdminResponse(is_admin=True)


@router.get("/bookings", response_model=BookingListResponse)
def list_all_bookings(db: Session = Depends(get_db)):
    bookings = AdminService(db).all_bookings()
    return BookingListResponse(bookings=[booking_response(b) for b in bookings])


@router.get("/dashboard", response_model=DashboardResponse)
def get_dashboard(db: Session = Depends(get_db)):
    data = AdminService(db).dashboard()
    return DashboardResponse(
        dashboard_data=DashboardData(
            total_bookings=data["total_bookings"],
            total_revenue=data["total_revenue"],
            total_users=data["total_users"],
            active_shows=[
                ShowWithSeatsResponse(
                    **show_response(item["show"]).model_dump(),
                    occupied_seats=item["occupied_seats"],
                )
                for item in data["active_shows"]
            ],
        )
    )
