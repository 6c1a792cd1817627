import json
import logging
import os
import re
from typing import Dict

import openai

from feed.config import ORACLE_MODEL, ORACLE_TIMEOUT_SECONDS
from feed.exceptions import OracleError
from feed.models import OracleResponse, validate_oracle_response

CODE_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)```", flags=re.IGNORECASE | re.DOTALL)

SYSTEM_PROMPT = """You rank social media posts for one user's feed.
You receive a JSON object with:
- userContextSummary: the user's top tags, scroll behavior, engagement style, mood and request intent
- candidateSummaries: candidate posts (id, type, tags, creator, platform, stats, aiBoostScore, text_preview)
- intent and sessionMode: what the user asked for right now

Order the candidates from most to least relevant for this user and session.
Return ONLY a JSON object of the form {"order": ["<post id>", ...], "notes": "<optional short reason>"}.
Use only ids from candidateSummaries."""


def parse_oracle_response(content: str) -> OracleResponse:
    """
    Parse raw oracle text into an OracleResponse

    Args:
        content: Model reply, optionally wrapped in a code fence

    Returns:
        OracleResponse

    Raises:
        OracleError: if the reply is not JSON or violates the schema
    """
    text = (content or '').strip()
    match = CODE_FENCE_PATTERN.search(text)
    if match:
        text = match.group(1).strip()

    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as e:
        raise OracleError(f"Oracle reply is not JSON: {e}") from e

    return validate_oracle_response(payload)


class Client:
    def __init__(self, api_key: str = None, model: str = None, timeout: float = None, base_url: str = None):
        """
        Initialize the ranking oracle client

        Args:
            api_key: OpenAI API key (from environment)
            model: Chat model name
            timeout: Request timeout in seconds; a timeout counts as oracle failure
            base_url: Optional OpenAI-compatible endpoint
        """
        self.logger = logging.getLogger(self.__class__.__name__)

        api_key = api_key or os.getenv('OPENAI_API_KEY')
        if not api_key:
            raise ValueError("OPENAI_API_KEY is required for the ranking oracle")

        self.model = model or os.getenv('ORACLE_MODEL', ORACLE_MODEL)
        self.timeout = timeout or float(os.getenv('ORACLE_TIMEOUT_SECONDS', ORACLE_TIMEOUT_SECONDS))

        client_args = {'api_key': api_key, 'timeout': self.timeout, 'max_retries': 0}
        base_url = base_url or os.getenv('OPENAI_BASE_URL')
        if base_url:
            client_args['base_url'] = base_url
        self.client = openai.OpenAI(**client_args)

        self.logger.info(f"Ranking oracle ready (model={self.model}, timeout={self.timeout}s)")

    def rerank(self, payload: Dict) -> OracleResponse:
        """
        Ask the oracle for an ordering of the candidates in ``payload``

        Args:
            payload: {userContextSummary, candidateSummaries, intent, sessionMode}

        Returns:
            OracleResponse

        Raises:
            OracleError: on transport failure, timeout or an invalid reply
        """
        candidate_count = len(payload.get('candidateSummaries', []))
        self.logger.info(f"Requesting oracle rerank for {candidate_count} candidates")

        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {'role': 'system', 'content': SYSTEM_PROMPT},
                    {'role': 'user', 'content': json.dumps(payload, default=str)},
                ],
                temperature=0.2,
                response_format={'type': 'json_object'},
            )
        except openai.APITimeoutError as e:
            raise OracleError(f"Oracle timed out after {self.timeout}s") from e
        except openai.OpenAIError as e:
            raise OracleError(f"Oracle request failed: {e}") from e

        if not completion.choices:
            raise OracleError("Oracle returned no choices")

        response = parse_oracle_response(completion.choices[0].message.content)
        self.logger.info(f"Oracle returned an order of {len(response.order)} ids")
        return response
