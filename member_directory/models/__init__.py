from member_directory.models.tenant import Tenant, TenantStatus
from member_directory.models.member import Member, MemberStatus
from member_directory.models.waitlist_response import WaitlistResponse, WaitlistStatus
