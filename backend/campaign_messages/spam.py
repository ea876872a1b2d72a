"""
Spam scoring, rate limiting and reputation for campaign questions.

A question gets a 0-100 score from weighted factors; higher means more likely
spam. Factors are stored in the message metadata so the campaign creator can
see why a question was flagged.
"""
import logging
import math
import re
from datetime import timedelta
from django.db.models import F
from django.utils import timezone

from .models import CampaignMessage

logger = logging.getLogger(__name__)

MAX_SCORE = 100

URL_PATTERN = re.compile(r'https?://\S+')
REPEAT_PATTERN = re.compile(r'(.)\1{5,}')
PROHIBITED_WORDS = ['viagra', 'casino', 'crypto', 'bitcoin', 'ganhe dinheiro', 'clique aqui']

URL_WEIGHT_EACH = 10
URL_WEIGHT_MAX = 30
CAPS_WEIGHT = 20
CAPS_RATIO_THRESHOLD = 0.5
CAPS_MIN_LETTERS = 10
REPEAT_WEIGHT_EACH = 5
REPEAT_WEIGHT_MAX = 15
NEW_ACCOUNT_WEIGHT = 15
NEW_ACCOUNT_AGE = timedelta(hours=24)
NO_ORDERS_WEIGHT = 10
SPAM_HISTORY_WEIGHT = 20
SPAM_HISTORY_THRESHOLD = 50
PENDING_QUESTIONS_THRESHOLD = 3
PENDING_WEIGHT_EACH = 5
PENDING_WEIGHT_MAX = 15
PROHIBITED_WEIGHT = 30

# Rate limits
GLOBAL_LIMIT = 10
GLOBAL_WINDOW = timedelta(hours=1)
BURST_LIMIT = 3
BURST_WINDOW = timedelta(minutes=1)
CAMPAIGN_LIMIT = 1
CAMPAIGN_WINDOW = timedelta(minutes=2)

# Reputation
TRUSTED_ACCOUNT_AGE = timedelta(days=30)
TRUSTED_ACCOUNT_BONUS = 5
HAS_ORDERS_BONUS = 10
DEFAULT_PENALTY = 20


def _factor(name, value, weight, description):
    return {'name': name, 'value': value, 'weight': weight, 'description': description}


def _plural(count, word, suffix='s'):
    return word if count == 1 else word + suffix


def calculate_spam_score(user, question, campaign=None, now=None):
    """
    Score a question from 0 to 100.

    Returns {'score': int, 'factors': [...]}. A missing user scores 100.
    """
    if user is None:
        return {'score': MAX_SCORE, 'factors': []}

    now = now or timezone.now()
    factors = []

    url_count = len(URL_PATTERN.findall(question))
    if url_count:
        factors.append(_factor(
            'urls', url_count, min(url_count * URL_WEIGHT_EACH, URL_WEIGHT_MAX),
            f"Contains {url_count} {_plural(url_count, 'link')}"
        ))

    letters = re.sub(r'[^a-zA-Z]', '', question)
    upper = re.sub(r'[^A-Z]', '', question)
    caps_ratio = len(upper) / len(letters) if letters else 0
    if caps_ratio > CAPS_RATIO_THRESHOLD and len(letters) > CAPS_MIN_LETTERS:
        percent = round(caps_ratio * 100)
        factors.append(_factor('excessive_caps', percent, CAPS_WEIGHT, f"{percent}% of the text in capitals"))

    repeat_count = sum(1 for _ in REPEAT_PATTERN.finditer(question))
    if repeat_count:
        factors.append(_factor(
            'repeated_characters', repeat_count, min(repeat_count * REPEAT_WEIGHT_EACH, REPEAT_WEIGHT_MAX),
            f"{repeat_count} {_plural(repeat_count, 'run')} of repeated characters"
        ))

    account_age = now - user.created_at
    if account_age < NEW_ACCOUNT_AGE:
        hours = round(account_age.total_seconds() / 3600)
        factors.append(_factor('new_account', hours, NEW_ACCOUNT_WEIGHT, f"Account created {hours} hour(s) ago"))

    if campaign is not None and not user.orders.filter(campaign=campaign).exists():
        factors.append(_factor('no_orders', 0, NO_ORDERS_WEIGHT, 'Has never ordered in this campaign'))

    if user.spam_score > SPAM_HISTORY_THRESHOLD:
        factors.append(_factor(
            'spam_history', user.spam_score, SPAM_HISTORY_WEIGHT, f"User spam score: {user.spam_score:.0f}"
        ))

    pending = CampaignMessage.objects.filter(sender=user, is_public=False)
    if campaign is not None:
        pending = pending.filter(campaign=campaign)
    pending_count = pending.count()
    if pending_count > PENDING_QUESTIONS_THRESHOLD:
        weight = min((pending_count - PENDING_QUESTIONS_THRESHOLD) * PENDING_WEIGHT_EACH, PENDING_WEIGHT_MAX)
        factors.append(_factor(
            'pending_questions', pending_count, weight,
            f"{pending_count} {_plural(pending_count, 'question')} still unanswered"
        ))

    lowered = question.lower()
    found = [word for word in PROHIBITED_WORDS if word in lowered]
    if found:
        factors.append(_factor(
            'prohibited_content', len(found), PROHIBITED_WEIGHT,
            f"Contains prohibited {_plural(len(found), 'word')}: {', '.join(found)}"
        ))

    score = min(sum(f['weight'] for f in factors), MAX_SCORE)
    return {'score': score, 'factors': factors}


def _retry_seconds(window, last_created_at, now):
    remaining = window - (now - last_created_at)
    return max(math.ceil(remaining.total_seconds()), 0)


def check_rate_limit(user, campaign, now=None):
    """
    Check whether the user may post another question to the campaign.

    Returns a dict with 'allowed', 'retry_after' (seconds or None) and the
    current/max counters for the global, campaign and burst limits.
    """
    if user.is_banned:
        return {
            'allowed': False,
            'retry_after': None,
            'global_limit': {'current': 0, 'max': 0},
            'campaign_limit': {'current': 0, 'max': 0},
            'burst_limit': {'current': 0, 'max': 0},
        }

    now = now or timezone.now()
    sent = CampaignMessage.objects.filter(sender=user)
    global_count = sent.filter(created_at__gte=now - GLOBAL_WINDOW).count()
    campaign_count = sent.filter(campaign=campaign, created_at__gte=now - CAMPAIGN_WINDOW).count()
    burst_count = sent.filter(created_at__gte=now - BURST_WINDOW).count()

    global_allowed = global_count < GLOBAL_LIMIT
    campaign_allowed = campaign_count < CAMPAIGN_LIMIT
    burst_allowed = burst_count < BURST_LIMIT

    retry_after = None
    if not campaign_allowed:
        last = sent.filter(campaign=campaign).order_by('-created_at').values_list('created_at', flat=True).first()
        if last:
            retry_after = _retry_seconds(CAMPAIGN_WINDOW, last, now)
    elif not burst_allowed:
        last = sent.order_by('-created_at').values_list('created_at', flat=True).first()
        if last:
            retry_after = _retry_seconds(BURST_WINDOW, last, now)
    elif not global_allowed:
        retry_after = int(GLOBAL_WINDOW.total_seconds())

    return {
        'allowed': global_allowed and campaign_allowed and burst_allowed,
        'retry_after': retry_after,
        'global_limit': {'current': global_count, 'max': GLOBAL_LIMIT},
        'campaign_limit': {'current': campaign_count, 'max': CAMPAIGN_LIMIT},
        'burst_limit': {'current': burst_count, 'max': BURST_LIMIT},
    }


def update_user_reputation(user, now=None):
    """Reward a user whose question was answered"""
    if user is None:
        return
    now = now or timezone.now()
    user.refresh_from_db(fields=['spam_score', 'message_count'])

    spam_score = user.spam_score
    if now - user.created_at > TRUSTED_ACCOUNT_AGE:
        spam_score = max(0, spam_score - TRUSTED_ACCOUNT_BONUS)
    if user.orders.exists():
        spam_score = max(0, spam_score - HAS_ORDERS_BONUS)

    user.spam_score = spam_score
    user.message_count = F('message_count') + 1
    user.save(update_fields=['spam_score', 'message_count', 'updated_at'])
    user.refresh_from_db(fields=['message_count'])
    logger.debug(f"Updated reputation for user {user.id}: spam_score={spam_score}")


def penalize_user(user, penalty=DEFAULT_PENALTY):
    """Raise a user's spam score after one of their questions was removed as spam"""
    user.refresh_from_db(fields=['spam_score'])
    user.spam_score = min(user.spam_score + penalty, MAX_SCORE)
    user.save(update_fields=['spam_score', 'updated_at'])
    logger.info(f"Penalized user {user.id} by {penalty}, spam_score={user.spam_score}")


def spam_factors_summary(factors):
    """Bullet list of factors, heaviest first"""
    if not factors:
        return 'No risk factors detected'
    ordered = sorted(factors, key=lambda f: f['weight'], reverse=True)
    return '\n'.join(f"• {f['description']} (+{f['weight']} points)" for f in ordered)
