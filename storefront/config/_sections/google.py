"""Google OAuth / Drive configuration models."""

from pydantic import BaseModel


class GoogleSettings(BaseModel):
    client_id: str = ""
    client_secret: str = ""
    token_url: str = "https://oauth2.googleapis.com/token"
    drive_api_url: str = "https://www.googleapis.com/drive/v3"
    upload_api_url: str = "https://www.googleapis.com/upload/drive/v3"
    timeout: float = 60.0
