from sqlalchemy import Column, DateTime, Float, Index, Integer, String
from sqlalchemy.sql import func

from car_rental.db.base import Base


class Season(Base):
    __tablename__ = "Seasons"
    __table_args__ = (Index("IX_Seasons_CompanyID", "CompanyID"),)

    SeasonID = Column(Integer, primary_key=True)
    CompanyID = Column(Integer, nullable=False)
    SeasonName = Column(String(100), nullable=False)
    StartMonth = Column(Integer, nullable=False)
    StartDay = Column(Integer, nullable=False)
    EndMonth = Column(Integer, nullable=False)
    EndDay = Column(Integer, nullable=False)
    PriceMultiplier = Column(Float, nullable=False, default=1.0)
    DiscountLabel = Column(String(100))
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())
