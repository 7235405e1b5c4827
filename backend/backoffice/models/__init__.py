from .tenancy import Store, new_id
from .shifts import Shift
from .day_summaries import DaySummary
from .lottery import LotteryGame, LotteryBin, LotteryPack, LotteryBusinessDay, LotteryDayPack

__all__ = [
    'Store', 'new_id',
    'Shift',
    'DaySummary',
    'LotteryGame', 'LotteryBin', 'LotteryPack', 'LotteryBusinessDay', 'LotteryDayPack',
]
