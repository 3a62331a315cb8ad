"""
Directory：意見、主題、使用者資料、政治傾向分數的唯讀查詢

這些資料屬於平台的其他服務，這裡只定義會用到的欄位，
並提供本機開發和測試用的 in-memory 實作。
"""
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Tuple


@dataclass(frozen=True)
class OpinionRef:
    id: str
    author_id: str
    topic_id: str
    stance: str


@dataclass(frozen=True)
class TopicSummary:
    id: str
    title: str
    description: Optional[str] = None


@dataclass(frozen=True)
class UserSummary:
    id: str
    display_name: str
    profile_image_url: Optional[str] = None


@dataclass(frozen=True)
class PoliticalScores:
    economic: Optional[float]
    authoritarian: Optional[float]


class Directory(Protocol):
    def get_opinion(self, opinion_id: str) -> Optional[OpinionRef]: ...

    def find_user_opinion(self, topic_id: str, user_id: str) -> Optional[OpinionRef]: ...

    def get_topic(self, topic_id: str) -> Optional[TopicSummary]: ...

    def get_user(self, user_id: str) -> Optional[UserSummary]: ...

    def get_political_scores(self, user_id: str) -> Optional[PoliticalScores]: ...


class InMemoryDirectory:
    def __init__(self) -> None:
        self._opinions: Dict[str, OpinionRef] = {}
        self._by_topic_user: Dict[Tuple[str, str], OpinionRef] = {}
        self._topics: Dict[str, TopicSummary] = {}
        self._users: Dict[str, UserSummary] = {}
        self._scores: Dict[str, PoliticalScores] = {}

    # ---- seeding ----

    def add_opinion(self, opinion_id: str, author_id: str, topic_id: str, stance: str) -> OpinionRef:
        opinion = OpinionRef(id=opinion_id, author_id=author_id, topic_id=topic_id, stance=stance)
        self._opinions[opinion_id] = opinion
        self._by_topic_user[(topic_id, author_id)] = opinion
        return opinion

    def add_topic(self, topic_id: str, title: str, description: Optional[str] = None) -> TopicSummary:
        topic = TopicSummary(id=topic_id, title=title, description=description)
        self._topics[topic_id] = topic
        return topic

    def add_user(self, user_id: str, display_name: str, profile_image_url: Optional[str] = None) -> UserSummary:
        user = UserSummary(id=user_id, display_name=display_name, profile_image_url=profile_image_url)
        self._users[user_id] = user
        return user

    def set_political_scores(self, user_id: str, economic: Optional[float], authoritarian: Optional[float]) -> None:
        self._scores[user_id] = PoliticalScores(economic=economic, authoritarian=authoritarian)

    # ---- Directory ----

    def get_opinion(self, opinion_id: str) -> Optional[OpinionRef]:
        return self._opinions.get(opinion_id)

    def find_user_opinion(self, topic_id: str, user_id: str) -> Optional[OpinionRef]:
        return self._by_topic_user.get((topic_id, user_id))

    def get_topic(self, topic_id: str) -> Optional[TopicSummary]:
        return self._topics.get(topic_id)

    def get_user(self, user_id: str) -> Optional[UserSummary]:
        return self._users.get(user_id)

    def get_political_scores(self, user_id: str) -> Optional[PoliticalScores]:
        return self._scores.get(user_id)
