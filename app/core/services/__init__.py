from app.core.services.brevo import BrevoService
from app.core.services.challenge import (
    ChallengeService,
    IssuedChallenge,
    challenge_service,
)
from app.core.services.channels import (
    EmailChannel,
    MessageChannel,
    SendResult,
    WhatsAppChannel,
)
from app.core.services.delivery import (
    ChannelOrchestrator,
    DeliveryResult,
    channel_orchestrator,
)
from app.core.services.identity import (
    IdentityResolver,
    ResolvedIdentity,
    identity_resolver,
)
from app.core.services.rate_limit import (
    MemoryBackend,
    RateLimitBackend,
    RateLimiter,
    RateLimitResult,
    RedisBackend,
    otp_rate_limiter,
)
from app.core.services.redis_service import RedisService
from app.core.services.session import (
    IssuedSession,
    SessionClaims,
    SessionIssuer,
    session_issuer,
)
from app.core.services.template import Renderer
from app.core.services.verification import (
    VerificationEngine,
    VerificationSuccess,
    verification_engine,
)
from app.core.services.whatsapp import WhatsAppService

__all__ = [
    # Provider clients
    "BrevoService",
    "RedisService",
    "Renderer",
    "WhatsAppService",
    # Channels
    "MessageChannel",
    "WhatsAppChannel",
    "EmailChannel",
    "SendResult",
    "ChannelOrchestrator",
    "DeliveryResult",
    "channel_orchestrator",
    # Rate limiting
    "MemoryBackend",
    "RateLimitBackend",
    "RateLimiter",
    "RateLimitResult",
    "RedisBackend",
    "otp_rate_limiter",
    # Challenges, verification and sessions
    "ChallengeService",
    "IssuedChallenge",
    "challenge_service",
    "VerificationEngine",
    "VerificationSuccess",
    "verification_engine",
    "IdentityResolver",
    "ResolvedIdentity",
    "identity_resolver",
    "SessionIssuer",
    "IssuedSession",
    "SessionClaims",
    "session_issuer",
]
