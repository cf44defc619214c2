from avatar_welcome.clients.fish_audio import FishAudioClient
from avatar_welcome.clients.heygen import HeyGenClient
from avatar_welcome.clients.whop import WhopClient

__all__ = ["FishAudioClient", "HeyGenClient", "WhopClient"]
