from pydantic import BaseModel


class FeedbackRecord(BaseModel):
    positive_count: int = 0
    negative_count: int = 0
    total_count: int = 0

    @property
    def ratio(self) -> float:
        """Share of positive feedback; neutral (0.5) before any feedback."""
        if self.total_count == 0:
            return 0.5
        return self.positive_count / self.total_count
