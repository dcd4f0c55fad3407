class LeaveBotError(Exception):
    """Base error for everything the leave bot surfaces to a user or a log"""

    code = 'error'
    default_message = 'Something went wrong. Please try again.'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class LeaveValidationError(LeaveBotError):
    """A user-correctable problem with one submitted field"""

    code = 'validation_error'

    def __init__(self, field, message):
        super().__init__(message)
        self.field = field


class DateFormatError(LeaveValidationError, ValueError):
    code = 'date_format_error'

    def __init__(self, message, field='date'):
        super().__init__(field, message)


class DuplicateLeaveError(LeaveValidationError):
    code = 'duplicate_leave'


class LeaveNotFoundError(LeaveBotError):
    code = 'not_found'
    default_message = 'This leave has already been removed.'


class NotLeaveOwnerError(LeaveBotError):
    code = 'forbidden'
    default_message = 'You can only manage your own leaves.'


class ExternalServiceError(LeaveBotError):
    """Store or messaging failure"""

    code = 'external_error'
    default_message = 'Sorry, there was an error processing your leave request. Please try again.'


class StoreError(ExternalServiceError):
    code = 'store_error'


class DuplicateKeyError(StoreError):
    """Raised by a store when the compound uniqueness constraint is violated"""

    code = 'duplicate_key'


class NotInChannelError(ExternalServiceError):
    code = 'not_in_channel'

    def __init__(self, channel_id, message=None):
        super().__init__(message or f'The app is not a member of channel {channel_id}.')
        self.channel_id = channel_id
