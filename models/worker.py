from sqlmodel import SQLModel, Field
from typing import List, Optional


class Worker(SQLModel, table=True):
    __tablename__ = "workers"

    id: str = Field(primary_key=True)
    name: str = Field(index=True)
    email: Optional[str] = Field(default=None)

    # Scheduled shift, free-form as entered by admins: "17:00", "17:00:00", "5pm", "5:30 PM"
    shift_start: Optional[str] = Field(default=None)
    shift_end: Optional[str] = Field(default=None)
    # Comma separated weekday numbers, 0=Sunday ... 6=Saturday
    shift_days: str = Field(default="1,2,3,4,5")

    is_active: bool = Field(default=True, index=True)

    def shift_day_numbers(self) -> List[int]:
        return [int(d) for d in self.shift_days.split(",") if d.strip().isdigit()]
