from app.models.blueprint import Blueprint, BlueprintSuite
from app.models.conversation import Conversation, ConversationMessage
from app.models.project import Project
from app.models.prompt import ImplementationPrompt, PromptSequence
from app.models.user import User

__all__ = [
    "Blueprint",
    "BlueprintSuite",
    "Conversation",
    "ConversationMessage",
    "ImplementationPrompt",
    "Project",
    "PromptSequence",
    "User",
]
