from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class UserAgentCategory(str, Enum):
    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"
    BOT = "bot"


class BrowserType(str, Enum):
    CHROME = "chrome"
    FIREFOX = "firefox"
    SAFARI = "safari"
    EDGE = "edge"
    OPERA = "opera"


class OperatingSystem(str, Enum):
    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"
    ANDROID = "android"
    IOS = "ios"


class UserAgent(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    category: UserAgentCategory
    browser: Optional[BrowserType] = None
    os: Optional[OperatingSystem] = None
    version: Optional[str] = None
    mobile: bool = False
