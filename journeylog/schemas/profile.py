from pydantic import BaseModel, ConfigDict

FALLBACK_USERNAME = "Unknown"


class Profile(BaseModel):

    model_config = ConfigDict(frozen=True)

    user_id: str
    username: str
    avatar: str = ""

    @classmethod
    def fallback(cls, user_id: str) -> "Profile":
        return cls(user_id=user_id, username=FALLBACK_USERNAME, avatar="")

    @property
    def is_fallback(self) -> bool:
        return self.username == FALLBACK_USERNAME and not self.avatar
