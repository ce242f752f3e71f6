from pydantic import BaseModel, ConfigDict, Field

class PubSubMessageAttributes(BaseModel):
    """
    Attributes Cloud Storage attaches to a Pub/Sub notification
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    event_type: str = Field(..., alias="eventType")
    object_id: str = Field(..., alias="objectId")
    bucket_id: str | None = Field(None, alias="bucketId")
    object_generation: str | None = Field(None, alias="objectGeneration")


class PubSubMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    message_id: str = Field(..., alias="messageId")
    attributes: PubSubMessageAttributes
    data: str | None = None
    publish_time: str | None = Field(None, alias="publishTime")


class PubSubPushEnvelope(BaseModel):
    """
    Body of a Pub/Sub push delivery
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    message: PubSubMessage
    subscription: str | None = None
