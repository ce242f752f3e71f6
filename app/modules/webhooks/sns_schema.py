from typing import Any, Literal
from pydantic import BaseModel, ConfigDict, Field

# The three body shapes accepted on the S3 endpoint. Parsing yields exactly one of
# SubscriptionConfirmation, SnsEnvelope or DirectBatch.

class S3ObjectRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: str
    sequencer: str | None = None


class S3Entity(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    object: S3ObjectRef


class S3EventRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    event_name: str = Field(..., alias="eventName")
    s3: S3Entity


class DirectBatch(BaseModel):
    """
    S3 event notification document (`{"Records": [...]}`)
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    records: list[Any] = Field(default_factory=list, alias="Records")
    message_id: str | None = None  # set when unwrapped from an SNS envelope


class SnsEnvelope(BaseModel):
    """
    SNS Notification whose Message is itself a JSON document
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["Notification"] = Field(..., alias="Type")
    message_id: str | None = Field(None, alias="MessageId")
    topic_arn: str | None = Field(None, alias="TopicArn")
    message: str = Field(..., alias="Message")
    timestamp: str | None = Field(None, alias="Timestamp")


class SubscriptionConfirmation(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["SubscriptionConfirmation"] = Field(..., alias="Type")
    message_id: str | None = Field(None, alias="MessageId")
    topic_arn: str | None = Field(None, alias="TopicArn")
    subscribe_url: str = Field(..., alias="SubscribeURL")
    token: str | None = Field(None, alias="Token")


S3NotificationBody = SubscriptionConfirmation | SnsEnvelope | DirectBatch
