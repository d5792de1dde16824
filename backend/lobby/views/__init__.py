from lobby.views.handlers import (
    create_lobby as create_lobby,
)
from lobby.views.handlers import (
    health as health,
)
from lobby.views.handlers import (
    list_bots as list_bots,
)
from lobby.views.handlers import (
    lobby_info as lobby_info,
)
