from __future__ import annotations

from typing import Any, Dict, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

class WalletActionReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    action: Literal["status", "activate", "deactivate"] = "status"
    listing_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("listingId", "listing_id"))
    user_token: Optional[str] = Field(default=None, validation_alias=AliasChoices("userToken", "user_token"))

class CheckoutReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    listing_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("listingId", "listing_id"))
    auto_activate: bool = Field(default=False, validation_alias=AliasChoices("autoActivate", "auto_activate"))
    # "R$ 12,50" style strings are accepted as well as numbers
    amount_brl: Optional[Union[float, str]] = Field(default=None, validation_alias=AliasChoices("amountBRL", "amount_brl"))
    days: Optional[float] = None
    return_base_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("returnBaseUrl", "return_base_url"))
    user_token: Optional[str] = Field(default=None, validation_alias=AliasChoices("userToken", "user_token"))

class PayoutSummaryReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    user_token: Optional[str] = Field(default=None, validation_alias=AliasChoices("userToken", "user_token"))

class ListingDeleteReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    listing_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("listingId", "listing_id"))
    user_token: Optional[str] = Field(default=None, validation_alias=AliasChoices("userToken", "user_token"))

class GameApproveOverride(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    name: Optional[str] = None
    website: Optional[str] = None
    currency_name: Optional[str] = None
    cover_url: Optional[str] = None
    owner_user_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("ownerUserId", "owner_user_id"))

class GameApproveReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    request_id: Union[str, int] = Field(validation_alias=AliasChoices("requestId", "request_id"))
    approved: bool
    note: Optional[str] = None
    skip_server_insert: bool = Field(default=False, validation_alias=AliasChoices("skipServerInsert", "skip_server_insert"))
    override: Optional[GameApproveOverride] = None

    def override_fields(self) -> Dict[str, Any]:
        """Only the keys the caller actually sent."""
        if self.override is None:
            return {}
        data = self.override.model_dump(exclude_unset=True)
        if "owner_user_id" in data:
            data["ownerUserId"] = data.pop("owner_user_id")
        return data

class PartnerOnboardReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    action: Literal["status", "onboard"] = "status"
    return_base_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("returnBaseUrl", "return_base_url"))
    user_token: Optional[str] = Field(default=None, validation_alias=AliasChoices("userToken", "user_token"))
