class AgbApiException ( Exception ):
    '''Exception type used for transport and API errors in the AgbCloud client.'''

    def __init__(self, message, code=None, body=None):
        """
        Initialize the exception with a message and an optional status code.

        Args:
            message (str): The error message.
            code (int, optional): An optional HTTP status code returned by the API. Defaults to None.
            body (str, optional): The raw response body, if any was received. Defaults to None.
        """
        super().__init__(message)
        self.code = code
        self.body = body


GET = 'GET'
POST = 'POST'
