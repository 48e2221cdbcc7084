"""Alert system module."""
from alerts.engine import EvaluationCycle, CycleReport, FiredRule
from alerts.evaluator import evaluate
from alerts.cooldown import CooldownGate
from alerts.dispatcher import NotificationDispatcher
from alerts.incidents import IncidentRecorder, IncidentJanitor
from alerts.rules_manager import RulesManager
from alerts.service import AlertService
from alerts.channels import ConsoleChannel, FileChannel, TelegramChannel, EmailChannel, build_channels
