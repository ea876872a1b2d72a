"""
Test suite for campaign Q&A
Tests: spam scoring factors, rate limits, reputation, question validation and
the question/answer endpoints
"""
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient
from datetime import timedelta

from backend.core.models import User, AuditLog
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.campaign_messages.models import CampaignMessage
from backend.campaign_messages import spam


def _factor_names(analysis):
    return {factor['name'] for factor in analysis['factors']}


class SpamScoreTests(TestCase):
    """Test spam score factors"""

    def setUp(self):
        self.campaign = TestDataFactory.create_campaign()
        self.user = TestDataFactory.create_user()
        # Established account with an order in the campaign
        User.objects.filter(pk=self.user.pk).update(created_at=timezone.now() - timedelta(days=60))
        self.user.refresh_from_db()
        TestDataFactory.create_order(self.campaign, customer=self.user)

    def test_clean_question_scores_zero(self):
        """Test a clean question from an established user scores zero"""
        analysis = spam.calculate_spam_score(self.user, 'Does the cheese need refrigeration?', self.campaign)
        self.assertEqual(analysis['score'], 0)
        self.assertEqual(analysis['factors'], [])

    def test_missing_user_scores_max(self):
        """Test an unknown sender gets the maximum score"""
        analysis = spam.calculate_spam_score(None, 'Hello there', self.campaign)
        self.assertEqual(analysis['score'], 100)

    def test_urls_capped(self):
        """Test the URL factor is capped"""
        one = spam.calculate_spam_score(self.user, 'see https://a.com', self.campaign)
        self.assertEqual(one['score'], 10)
        many = spam.calculate_spam_score(
            self.user, 'http://a.com http://b.com http://c.com http://d.com', self.campaign)
        self.assertEqual(many['score'], 30)

    def test_excessive_caps(self):
        """Test shouting in capitals is scored"""
        analysis = spam.calculate_spam_score(self.user, 'WHEN WILL THIS ARRIVE PLEASE', self.campaign)
        self.assertIn('excessive_caps', _factor_names(analysis))
        self.assertEqual(analysis['score'], 20)

    def test_short_caps_ignored(self):
        """Test short all-caps text is not scored"""
        analysis = spam.calculate_spam_score(self.user, 'OK THANKS', self.campaign)
        self.assertNotIn('excessive_caps', _factor_names(analysis))

    def test_repeated_characters(self):
        """Test long runs of one character are scored"""
        analysis = spam.calculate_spam_score(self.user, 'hellooooooo friend!!!!!!', self.campaign)
        factor = next(f for f in analysis['factors'] if f['name'] == 'repeated_characters')
        self.assertEqual(factor['value'], 2)
        self.assertEqual(factor['weight'], 10)

    def test_new_account(self):
        """Test new accounts are scored"""
        newbie = TestDataFactory.create_user()
        analysis = spam.calculate_spam_score(newbie, 'Is there a discount?')
        self.assertEqual(_factor_names(analysis), {'new_account'})
        self.assertEqual(analysis['score'], 15)

    def test_no_orders_only_with_campaign(self):
        """Test the no-orders factor applies only with a campaign"""
        other_campaign = TestDataFactory.create_campaign()
        analysis = spam.calculate_spam_score(self.user, 'Is there a discount?', other_campaign)
        self.assertEqual(_factor_names(analysis), {'no_orders'})
        self.assertEqual(spam.calculate_spam_score(self.user, 'Is there a discount?')['score'], 0)

    def test_spam_history(self):
        """Test past spam score feeds the new score"""
        self.user.spam_score = 60
        analysis = spam.calculate_spam_score(self.user, 'Is there a discount?', self.campaign)
        self.assertEqual(_factor_names(analysis), {'spam_history'})
        self.assertEqual(analysis['score'], 20)

    def test_pending_questions(self):
        """Test unanswered questions in the campaign are scored"""
        for _ in range(5):
            TestDataFactory.create_question(self.campaign, sender=self.user)
        analysis = spam.calculate_spam_score(self.user, 'Another one?', self.campaign)
        factor = next(f for f in analysis['factors'] if f['name'] == 'pending_questions')
        self.assertEqual(factor['value'], 5)
        self.assertEqual(factor['weight'], 10)

    def test_prohibited_content(self):
        """Test prohibited words are scored"""
        analysis = spam.calculate_spam_score(self.user, 'Ganhe dinheiro com Bitcoin', self.campaign)
        factor = next(f for f in analysis['factors'] if f['name'] == 'prohibited_content')
        self.assertEqual(factor['value'], 2)
        self.assertEqual(factor['weight'], 30)

    def test_score_capped_at_100(self):
        """Test the total score is capped at 100"""
        newbie = TestDataFactory.create_user()
        newbie.spam_score = 80
        text = 'BUY CRYPTO NOW http://a.com http://b.com http://c.com!!!!!!!!!!'
        analysis = spam.calculate_spam_score(newbie, text, self.campaign)
        self.assertEqual(analysis['score'], 100)

    def test_factors_summary(self):
        """Test human readable factor summary"""
        self.assertEqual(spam.spam_factors_summary([]), 'No risk factors detected')
        summary = spam.spam_factors_summary([
            {'name': 'new_account', 'value': 1, 'weight': 15, 'description': 'Account created 1 hour(s) ago'},
            {'name': 'urls', 'value': 3, 'weight': 30, 'description': 'Contains 3 links'},
        ])
        self.assertEqual(summary, '• Contains 3 links (+30 points)\n• Account created 1 hour(s) ago (+15 points)')


class RateLimitTests(TestCase):
    """Test question rate limits"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.campaign = TestDataFactory.create_campaign()

    def _question_at(self, campaign, minutes_ago):
        message = TestDataFactory.create_question(campaign, sender=self.user)
        CampaignMessage.objects.filter(pk=message.pk).update(
            created_at=timezone.now() - timedelta(minutes=minutes_ago))
        return message

    def test_first_question_allowed(self):
        """Test the first question is allowed"""
        result = spam.check_rate_limit(self.user, self.campaign)
        self.assertTrue(result['allowed'])
        self.assertIsNone(result['retry_after'])

    def test_banned_user_refused(self):
        """Test banned users cannot ask"""
        self.user.is_banned = True
        self.assertFalse(spam.check_rate_limit(self.user, self.campaign)['allowed'])

    def test_campaign_limit(self):
        """Test the per campaign limit"""
        self._question_at(self.campaign, 0.5)
        result = spam.check_rate_limit(self.user, self.campaign)
        self.assertFalse(result['allowed'])
        self.assertGreater(result['retry_after'], 0)
        self.assertLessEqual(result['retry_after'], 120)
        self.assertEqual(result['campaign_limit'], {'current': 1, 'max': 1})

        # A different campaign is still open
        self.assertTrue(spam.check_rate_limit(self.user, TestDataFactory.create_campaign())['allowed'])

    def test_campaign_limit_expires(self):
        """Test the per campaign limit resets after its window"""
        self._question_at(self.campaign, 3)
        self.assertTrue(spam.check_rate_limit(self.user, self.campaign)['allowed'])

    def test_burst_limit(self):
        """Test the short burst limit across campaigns"""
        for _ in range(3):
            self._question_at(TestDataFactory.create_campaign(), 0.2)
        result = spam.check_rate_limit(self.user, self.campaign)
        self.assertFalse(result['allowed'])
        self.assertEqual(result['burst_limit']['current'], 3)

    def test_global_limit(self):
        """Test the hourly limit across campaigns"""
        for _ in range(10):
            self._question_at(TestDataFactory.create_campaign(), 30)
        result = spam.check_rate_limit(self.user, self.campaign)
        self.assertFalse(result['allowed'])
        self.assertEqual(result['retry_after'], 3600)


class ReputationTests(TestCase):
    """Test reputation updates"""

    def test_answered_question_rewards_established_customer(self):
        """Test answered questions lower an established customer's score"""
        campaign = TestDataFactory.create_campaign()
        user = TestDataFactory.create_user()
        TestDataFactory.create_order(campaign, customer=user)
        User.objects.filter(pk=user.pk).update(created_at=timezone.now() - timedelta(days=45), spam_score=30)
        user.refresh_from_db()

        spam.update_user_reputation(user)
        user.refresh_from_db()
        self.assertEqual(user.spam_score, 15)
        self.assertEqual(user.message_count, 1)

    def test_reputation_never_below_zero(self):
        """Test reputation updates never go below zero"""
        campaign = TestDataFactory.create_campaign()
        user = TestDataFactory.create_user()
        TestDataFactory.create_order(campaign, customer=user)
        spam.update_user_reputation(user)
        user.refresh_from_db()
        self.assertEqual(user.spam_score, 0)

    def test_penalize_capped(self):
        """Test penalties are capped at 100"""
        user = TestDataFactory.create_user()
        User.objects.filter(pk=user.pk).update(spam_score=90)
        spam.penalize_user(user)
        user.refresh_from_db()
        self.assertEqual(user.spam_score, 100)


class QuestionAPITests(TestCase):
    """Test campaign question endpoints"""

    def setUp(self):
        self.creator = TestDataFactory.create_creator()
        self.asker = TestDataFactory.create_user()
        self.campaign = TestDataFactory.create_campaign(creator=self.creator)
        self.creator_client = AuthenticatedAPIClient()
        self.creator_client.authenticate_user(self.creator)
        self.asker_client = AuthenticatedAPIClient()
        self.asker_client.authenticate_user(self.asker)

    def _ask(self, question='Is delivery available in Campinas?'):
        return self.asker_client.post('/api/v1/campaign-messages/', {
            'campaign': self.campaign.id, 'question': question
        }, format='json')

    def test_ask_question(self):
        """Test asking a question"""
        response = self._ask('  Is delivery available in Campinas?  ')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['message']['question'], 'Is delivery available in Campinas?')
        self.assertFalse(response.data['message']['is_public'])
        # New account without orders in this campaign
        self.assertEqual(response.data['spam_score'], 25)
        self.assertIn('can_edit_until', response.data)
        self.asker.refresh_from_db()
        self.assertIsNotNone(self.asker.last_message_at)

    def test_ask_requires_authentication(self):
        """Test asking needs a token"""
        response = APIClient().post('/api/v1/campaign-messages/', {
            'campaign': self.campaign.id, 'question': 'Anyone?'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_question_validation(self):
        """Test question content rules and their error messages"""
        cases = {
            '   ': 'Question cannot be empty',
            'ab': 'Question is too short',
            'hellooooooooooooo': 'Repeated characters detected',
            'http://a.com http://b.com http://c.com': 'Too many links in the message',
        }
        for question, error in cases.items():
            response = self._ask(question)
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, question)
            self.assertEqual(str(response.data['question'][0]), error)

    def test_question_too_long(self):
        """Test overlong questions are rejected"""
        response = self._ask('x ' * 600)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_second_question_rate_limited(self):
        """Test a second question in the same campaign is rate limited"""
        self.assertEqual(self._ask().status_code, status.HTTP_201_CREATED)
        response = self._ask('And what about Sorocaba?')
        self.assertEqual(response.status_code, status.HTTP_429_TOO_MANY_REQUESTS)
        self.assertIn('retry_after', response.data)
        self.assertIn('Try again in', response.data['error'])

    def test_public_list_shows_only_answered(self):
        """Test the public list shows answered questions only"""
        TestDataFactory.create_question(self.campaign, sender=self.asker)
        TestDataFactory.create_question(self.campaign, sender=self.asker, answer='Yes', is_public=True,
                                        answered_at=timezone.now(), answered_by=self.creator)
        response = APIClient().get(f'/api/v1/campaign-messages/?campaign={self.campaign.slug}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], 1)
        self.assertFalse(response.data['has_more'])
        self.assertEqual(response.data['messages'][0]['answer'], 'Yes')

    def test_public_list_pagination(self):
        """Test public list pagination"""
        for i in range(5):
            TestDataFactory.create_question(self.campaign, sender=self.asker, answer=f'A{i}', is_public=True)
        response = APIClient().get(f'/api/v1/campaign-messages/?campaign={self.campaign.id}&limit=2&offset=2')
        self.assertEqual(len(response.data['messages']), 2)
        self.assertEqual(response.data['total'], 5)
        self.assertTrue(response.data['has_more'])

        response = APIClient().get(f'/api/v1/campaign-messages/?campaign={self.campaign.id}&limit=101')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_mine_and_unanswered(self):
        """Test the own and unanswered question lists"""
        TestDataFactory.create_question(self.campaign, sender=self.asker)
        TestDataFactory.create_question(self.campaign)
        mine = self.asker_client.get(f'/api/v1/campaign-messages/mine/?campaign={self.campaign.id}')
        self.assertEqual(len(mine.data), 1)

        unanswered = self.creator_client.get(f'/api/v1/campaign-messages/unanswered/?campaign={self.campaign.id}')
        self.assertEqual(unanswered.status_code, status.HTTP_200_OK)
        self.assertEqual(len(unanswered.data), 2)
        self.assertIn('spam_summary', unanswered.data[0])

        forbidden = self.asker_client.get(f'/api/v1/campaign-messages/unanswered/?campaign={self.campaign.id}')
        self.assertEqual(forbidden.status_code, status.HTTP_403_FORBIDDEN)

    def test_edit_within_window(self):
        """Test editing inside the edit window"""
        question = TestDataFactory.create_question(self.campaign, sender=self.asker)
        response = self.asker_client.patch(f'/api/v1/campaign-messages/{question.id}/',
                                           {'question': 'Is pickup on Saturday?'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['is_edited'])
        self.assertIsNotNone(response.data['edited_at'])

    def test_edit_after_window(self):
        """Test editing after the edit window closes"""
        question = TestDataFactory.create_question(self.campaign, sender=self.asker)
        CampaignMessage.objects.filter(pk=question.pk).update(created_at=timezone.now() - timedelta(minutes=16))
        response = self.asker_client.patch(f'/api/v1/campaign-messages/{question.id}/',
                                           {'question': 'Is pickup on Saturday?'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_edit_by_other_user(self):
        """Test users cannot edit others' questions"""
        question = TestDataFactory.create_question(self.campaign, sender=self.asker)
        response = self.creator_client.patch(f'/api/v1/campaign-messages/{question.id}/',
                                             {'question': 'Changed by someone else'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_edit_answered_question(self):
        """Test answered questions cannot be edited"""
        question = TestDataFactory.create_question(self.campaign, sender=self.asker, answer='Done', is_public=True)
        response = self.asker_client.patch(f'/api/v1/campaign-messages/{question.id}/',
                                           {'question': 'Is pickup on Saturday?'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_answer_publishes(self):
        """Test answering publishes the question"""
        question = TestDataFactory.create_question(self.campaign, sender=self.asker)
        response = self.creator_client.patch(f'/api/v1/campaign-messages/{question.id}/answer/',
                                             {'answer': 'Yes, on Saturdays.'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['is_public'])
        self.assertEqual(response.data['answered_by']['id'], self.creator.id)

        self.asker.refresh_from_db()
        self.creator.refresh_from_db()
        self.assertEqual(self.asker.message_count, 1)
        self.assertEqual(self.creator.answered_count, 1)
        self.assertTrue(AuditLog.objects.filter(action='question_answer').exists())

        again = self.creator_client.patch(f'/api/v1/campaign-messages/{question.id}/answer/',
                                          {'answer': 'Twice'}, format='json')
        self.assertEqual(again.status_code, status.HTTP_400_BAD_REQUEST)

    def test_answer_length_bounds(self):
        """Test answers must be between 1 and 2000 characters after trimming"""
        question = TestDataFactory.create_question(self.campaign, sender=self.asker)
        url = f'/api/v1/campaign-messages/{question.id}/answer/'

        blank = self.creator_client.patch(url, {'answer': '   '}, format='json')
        self.assertEqual(blank.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('answer', blank.data)

        too_long = self.creator_client.patch(url, {'answer': 'a' * 2001}, format='json')
        self.assertEqual(too_long.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('answer', too_long.data)

        question.refresh_from_db()
        self.assertIsNone(question.answered_at)

        longest = self.creator_client.patch(url, {'answer': 'a' * 2000}, format='json')
        self.assertEqual(longest.status_code, status.HTTP_200_OK)
        self.assertEqual(len(longest.data['answer']), 2000)

    def test_only_creator_answers(self):
        """Test only the creator can answer"""
        question = TestDataFactory.create_question(self.campaign, sender=self.asker)
        response = self.asker_client.patch(f'/api/v1/campaign-messages/{question.id}/answer/',
                                           {'answer': 'Self answer'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_delete_spam_penalizes_sender(self):
        """Test deleting a spammy question penalizes the sender"""
        question = TestDataFactory.create_question(self.campaign, sender=self.asker, spam_score=70)
        response = self.creator_client.delete(f'/api/v1/campaign-messages/{question.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(CampaignMessage.objects.filter(pk=question.pk).exists())
        self.asker.refresh_from_db()
        self.assertEqual(self.asker.spam_score, 20)
        self.assertTrue(AuditLog.objects.filter(action='question_delete').exists())

    def test_delete_low_score_does_not_penalize(self):
        """Test deleting a low score question has no penalty"""
        question = TestDataFactory.create_question(self.campaign, sender=self.asker, spam_score=10)
        self.creator_client.delete(f'/api/v1/campaign-messages/{question.id}/')
        self.asker.refresh_from_db()
        self.assertEqual(self.asker.spam_score, 0)

    def test_only_creator_deletes(self):
        """Test only the creator can delete questions"""
        question = TestDataFactory.create_question(self.campaign, sender=self.asker)
        response = self.asker_client.delete(f'/api/v1/campaign-messages/{question.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
