"""Voice reminder subsystem: command parsing, store sync and alarm scheduling."""

from .errors import PresenterUnavailable, ReminderNotFound, StoreUnavailable, SubscriptionDropped
from .gateway import EventKind, LocalReminderGateway, ReminderEvent, ReminderGateway, Subscription
from .intent_router import IntentResult, IntentRouter
from .manager import AlarmScheduler, AlarmState, next_trigger
from .parser import ParsedCommand, parse_command
from .reminder_set import ReminderSet
from .sounds import AlarmPresenter, AlarmSoundPlayer, LocalSpeaker, SoundAlarmPresenter
from .storage import Repeat, ReminderRecord
